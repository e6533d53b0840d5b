"""Terminal rendering of pipeline run results.

Modules
-------
renderer
    ``RunRenderer`` turns a ``RunResult`` into Rich renderables, with
    color-coded action statuses and the failed action's diagnostics.
"""

from sitepipe.monitor.renderer import RunRenderer

__all__ = ["RunRenderer"]
