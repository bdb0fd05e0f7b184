"""
codehost

Project metadata management for a source-hosting service: permission-gated
project updates with repository storage and system hook side effects.
"""

import importlib.metadata

__version__ = importlib.metadata.version("codehost")
