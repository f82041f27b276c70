import sys

from ybuild.cli import main


sys.exit(main())
