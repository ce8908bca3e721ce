from cloudenv.cli import cli

cli()
