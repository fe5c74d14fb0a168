"""hnsbridge package"""
