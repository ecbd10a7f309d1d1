import sys

from launchsign.cli import main

sys.exit(main())
