"""
Repo-to-XML: Flatten a repository into a single XML or plain-text document.

This tool walks a cloned or local repository and embeds every included file's
path and contents in one document suitable for LLM prompting:
- A structured XML document (`<repository>` / `<directory>` / `<file>`)
- A delimited plain-text document (`--- FILE: <path> ---` blocks)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
