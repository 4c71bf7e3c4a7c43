"""splitdns: split-horizon DNS proxy (regional UDP / DNS-over-HTTPS)"""
