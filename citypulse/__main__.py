import sys

from citypulse.cli import main

sys.exit(main())
