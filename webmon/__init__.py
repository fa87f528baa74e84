"""
webmon - an availability supervisor.

webmon probes a single HTTP health endpoint at a fixed interval, classifies
every probe outcome, tracks consecutive-failure streaks per category and
restarts the supervised process when a configured threshold is crossed.
"""

from webmon.constants import APP_NAME, APP_VERSION

__version__ = APP_VERSION
__app_name__ = APP_NAME

__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "__version__",
    "__app_name__",
]
