# Keep this TINY; the runner imports modules.job_alert and calls run().
from . import lib  # so: from modules.job_alert import lib
from .main import run, shutdown, test_notify

__all__ = ["lib", "run", "shutdown", "test_notify"]
