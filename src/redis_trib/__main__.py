import sys

from redis_trib.cli import main


sys.exit(main())
