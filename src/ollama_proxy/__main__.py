import sys

from ollama_proxy.cli import main

sys.exit(main())
