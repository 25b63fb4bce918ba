"""Allow ``python -m src.cli`` execution; runs the parse command."""

from src.cli.parse import main

main()
