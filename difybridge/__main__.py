from difybridge.cli.main import app

app()
