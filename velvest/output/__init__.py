"""
Velvest Output

Presentation of engine snapshots.
"""

from velvest.output.console import VelvestConsole, get_console

__all__ = [
    "VelvestConsole",
    "get_console",
]
