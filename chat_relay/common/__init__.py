"""
Common package shared by the relay server and client.

Contains the wire protocol codec, event streams and shared constants.
"""
