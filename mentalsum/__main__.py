"""Allow running as `python -m mentalsum`."""

from mentalsum.cli import main

if __name__ == "__main__":
    main()
