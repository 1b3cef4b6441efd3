"""Allow ``python -m autoprint``."""

from autoprint.cli import main

if __name__ == "__main__":
    main()
