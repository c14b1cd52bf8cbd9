"""Allow ``python -m mockmode``."""

from mockmode.cli import main

if __name__ == "__main__":
    main()
