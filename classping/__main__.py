"""
Entry point for running classping as a module: python -m classping
"""

from classping.cli.commands import app

if __name__ == "__main__":
    app()
