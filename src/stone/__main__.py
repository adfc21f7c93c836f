import sys

from stone.cli import main

sys.exit(main())
