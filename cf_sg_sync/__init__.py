"""
Cloudflare Security Group Sync

Keeps the TCP/80 and TCP/443 ingress rules of an EC2 security group in step
with the IP ranges Cloudflare publishes for its edge network.
"""

__version__ = '1.0.0'
