"""
Configuration — formula files and installer settings.
"""

from formulary.core.config.loader import (  # noqa: F401
    FormulaError,
    find_formula_file,
    load_formula,
    parse_formula,
    resolve_formula,
)
from formulary.core.config.settings import ConfigError, Settings, load_settings  # noqa: F401
