import sys

from portal_pilot.cli import main

sys.exit(main())
