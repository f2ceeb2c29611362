"""Allow ``python -m reporttuner.cli`` execution."""

from reporttuner.cli.retrain import main

main()
