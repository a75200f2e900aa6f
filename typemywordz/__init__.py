"""TypeMyworDz - You Talk, We Type."""

__version__ = "1.0.0"
