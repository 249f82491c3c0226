"""Entry point for running gitgateway as a module.

This module allows gitgateway to be run as a Python module using the -m flag:
    python -m gitgateway [options] [root]
"""

import sys

from .web import main

if __name__ == "__main__":
    main(sys.argv[1:])
