"""
Services

- config/ - Discovery, cache, store sync and change watching
"""
