# Make `import doh_proxy.*` work without installing the project.
# Test modules live beside the code in namespace packages, so pytest runs
# with --import-mode=importlib and does not touch sys.path itself.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
