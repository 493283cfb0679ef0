from nameindex.cli.app import app

app()
