"""Click subcommands for the gitgood CLI."""
