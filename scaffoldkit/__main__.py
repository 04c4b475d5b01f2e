import sys

from scaffoldkit.cli import main

sys.exit(main())
