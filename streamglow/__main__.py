import sys

from streamglow.main import main

sys.exit(main())
