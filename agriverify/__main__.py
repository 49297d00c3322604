import sys

from agriverify.cli import main

sys.exit(main())
