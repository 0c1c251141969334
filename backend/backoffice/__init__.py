"""
酒店后台 API
"""
