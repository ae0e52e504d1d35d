"""GraphQL gateway adding derived lending fields to a Compound subgraph."""

__version__ = "0.1.0"
