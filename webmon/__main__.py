"""Allow ``python -m webmon``."""

from webmon.cli import main

if __name__ == "__main__":
    main()
