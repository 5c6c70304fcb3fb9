import sys

from blocktime.cli import main

sys.exit(main())
