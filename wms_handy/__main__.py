# wms_handy/__main__.py
import sys

from wms_handy.cli import main

sys.exit(main())
