import sys

from sysgenid.cli import main

sys.exit(main())
