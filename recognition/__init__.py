"""Symbol recognition core: head templates, interpretation graph, shape checks and text roles."""
