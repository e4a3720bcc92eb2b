"""
CLI entry point, when used as a module: `python -m cfkit`.

Useful for debugging in the IDEs (use the start-mode "Module", module "cfkit").
"""
from cfkit import cli

if __name__ == '__main__':
    cli.main()
