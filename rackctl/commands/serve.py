import typer
import uvicorn

from rackctl.config import Config


def serve(
    host: str = typer.Option(Config.API_HOST, help="Bind address"),
    port: int = typer.Option(Config.API_PORT, help="Bind port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP API."""
    typer.echo(f"🌐 Serving rackctl API on http://{host}:{port}")
    uvicorn.run("rackctl.api.main:app", host=host, port=port, reload=reload)
