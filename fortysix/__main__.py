"""
Entry point for running forty-six as a module: python -m fortysix
"""

from fortysix.cli.commands import app

if __name__ == "__main__":
    app()
