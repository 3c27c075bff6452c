from flowtable.cli import cli


cli(prog_name='flowtable')
