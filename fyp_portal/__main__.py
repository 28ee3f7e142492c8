import sys

from fyp_portal.cli import main

sys.exit(main())
