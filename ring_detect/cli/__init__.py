# Command line interface
