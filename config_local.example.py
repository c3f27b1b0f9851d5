# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for everything else. Only these switches are read from here.
"""

# Example: run the worker headless (no console REPL)
# CONSOLE_ENABLED = False

# Example: queue jobs without processing them in this process
# WORKER_ENABLED = False

# Example: no periodic maintenance while developing
# MAINTENANCE_ENABLED = False
