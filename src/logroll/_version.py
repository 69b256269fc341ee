"""
Fallback version module populated by hatch during builds.

For editable or source checkouts this default keeps imports working.
"""

__version__ = "0.1.0"
