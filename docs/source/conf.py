import importlib.util
import os
import sys

# Put project root on sys.path so autodoc can import the package if needed
sys.path.insert(0, os.path.abspath("../.."))

project = "bayesoc"
author = "bayesoc developers"

extensions = [
    "autoapi.extension",
    "sphinx.ext.doctest",
    "sphinx.ext.napoleon",
    "myst_nb",
    "sphinx_copybutton",
]
templates_path = []
exclude_patterns = []

nb_execution_mode = "off"

# Book-style layout when the theme is installed, bundled alabaster otherwise.
if importlib.util.find_spec("sphinx_book_theme") is not None:
    html_theme = "sphinx_book_theme"
    html_theme_options = {
        "path_to_docs": "docs/source",
        "use_repository_button": False,
    }
else:
    html_theme = "alabaster"
    html_theme_options = {}

myst_enable_extensions = [
    "deflist",
    "html_admonition",
    "colon_fence",
]

master_doc = "index"

# ---------------------------------------------------------------------------
# sphinx-autoapi: API reference for the `bayesoc` package
# ---------------------------------------------------------------------------
autoapi_type = "python"
# Restrict autoapi to the package source so module names stay rooted at
# `bayesoc.*` and the virtualenv is never scanned.
autoapi_dirs = ["../../bayesoc"]

autoapi_ignore = [
    "**/docs/**",
    "**/tests/**",
    "**/.venv/**",
    "**/__pycache__/**",
]

autodoc_typehints = "description"

autoapi_options = [
    "members",
    "undoc-members",
    "show-inheritance",
    "show-module-summary",
]

autoapi_python_class_content = "both"  # "class", "init"
