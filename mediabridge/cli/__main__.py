"""Allow ``python -m mediabridge.cli`` execution."""

from mediabridge.cli.ids import main

if __name__ == "__main__":
    main()
