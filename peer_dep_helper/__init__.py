"""peer-dep-helper: audit and fix peer dependencies of JavaScript projects."""

__version__ = "1.0.0"
