"""
Top-level package for DeskHelp, a Discord help-desk bot.

This package hosts:
- config loading from the environment and an optional config.yaml
- the Discord client and the message relay
- the OpenAI-compatible completion service and its error mapping
"""
