"""Python client for the school administration API.

    api = ApiClient("http://localhost:5000")
    api.login("admin", "secret")
    hostel = HostelClient(api)
    hostel.rooms(hostelId=...)
"""
from schooladmin.client.http import ApiClient, ApiClientError
from schooladmin.client.cache import QueryCache, freeze
from schooladmin.client.alumni import AlumniClient, AlumniKeys
from schooladmin.client.communication import CommunicationClient, CommunicationKeys
from schooladmin.client.exams import ExamsClient, ExamsKeys
from schooladmin.client.hostel import HostelClient, HostelKeys
