import sys

from .cli.main import cli_main

if __name__ == "__main__":
    sys.exit(cli_main())
