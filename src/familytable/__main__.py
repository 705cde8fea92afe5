"""Allow ``python -m familytable``."""

from familytable.cli import main

main()
