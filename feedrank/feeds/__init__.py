"""Feed assemblers: home, following, trending and community."""
