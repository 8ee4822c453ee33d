"""
Reporting views over ledgers and operating-characteristic tables.
"""
