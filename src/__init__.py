"""
Training and evaluation harness for four small supervised-learning exercises.
"""
