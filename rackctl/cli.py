import logging
import sys

import typer

from rackctl.commands import cluster, serve
from rackctl.logging import setup_logging

app = typer.Typer(help="rackctl - bring up a master and its nodes over SSH.")

# Global debug flag
debug_mode = False

# Add all command groups
app.add_typer(cluster.app, name="cluster")
app.command("serve")(serve.serve)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """rackctl - Cluster provisioning CLI."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger("rackctl").debug("Debug mode enabled")


def run() -> None:
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.getLogger("rackctl").error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.getLogger("rackctl").error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
