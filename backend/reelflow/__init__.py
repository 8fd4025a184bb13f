"""Short video generation and publishing backend"""
