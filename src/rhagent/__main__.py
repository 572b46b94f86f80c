"""Main entry point for rhagent."""

from rhagent.cli.main import main


if __name__ == "__main__":
    main()
