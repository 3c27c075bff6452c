from .executor import PolarsExecutor as PolarsExecutor
