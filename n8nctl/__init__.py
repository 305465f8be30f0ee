"""n8nctl - deployment, backup, restore and update tooling for n8n behind Traefik."""

__version__ = "0.1.0"
__author__ = "n8nctl maintainers"
