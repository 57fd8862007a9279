"""erts-bundler.

Target and runtime resolution for packaging an Erlang/Elixir application with a
matching ERTS into a single self-contained executable.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
