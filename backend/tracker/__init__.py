"""Application package for the classroom exercise tracker backend.

Students log in with the shared class password, reserve and present
exercises of each unit, and upload photographed corrections that are
normalized to PNG and stored once per content digest. Individual modules
contain the concrete implementations and documentation.
"""
