# Main File

import sys

from call_analytics.cli import main

if __name__ == "__main__":
    sys.exit(main())
