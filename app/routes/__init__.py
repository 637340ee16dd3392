"""
Blueprints for the FRISK portal, registered in create_app().
"""
