"""命令行接口 / Command-line interface."""
