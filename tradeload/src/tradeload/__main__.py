import sys

from tradeload.runner import main

if __name__ == "__main__":
    sys.exit(main())
