"""Allow ``python -m msod_stat``."""

from msod_stat.cli import main

main()
