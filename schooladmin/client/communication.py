from schooladmin.client.cache import FeatureClient, freeze

BASE = '/api/communication'


class CommunicationKeys:
    all = ('communication',)

    @classmethod
    def stats(cls):
        return cls.all + ('stats',)

    @classmethod
    def announcements(cls):
        return cls.all + ('announcements',)

    @classmethod
    def announcement_list(cls, filters=None):
        return cls.announcements() + ('list', freeze(filters))

    @classmethod
    def announcement_detail(cls, announcement_id):
        return cls.announcements() + ('detail', announcement_id)

    @classmethod
    def conversations(cls):
        return cls.all + ('conversations',)

    @classmethod
    def conversation_list(cls, filters=None):
        return cls.conversations() + ('list', freeze(filters))

    @classmethod
    def messages(cls, conversation_id, page=1, limit=50):
        return cls.conversations() + ('messages', conversation_id, page, limit)

    @classmethod
    def circulars(cls):
        return cls.all + ('circulars',)

    @classmethod
    def circular_list(cls, filters=None):
        return cls.circulars() + ('list', freeze(filters))

    @classmethod
    def circular_detail(cls, circular_id):
        return cls.circulars() + ('detail', circular_id)

    @classmethod
    def surveys(cls):
        return cls.all + ('surveys',)

    @classmethod
    def survey_list(cls, filters=None):
        return cls.surveys() + ('list', freeze(filters))

    @classmethod
    def survey_detail(cls, survey_id):
        return cls.surveys() + ('detail', survey_id)

    @classmethod
    def survey_responses(cls, survey_id, page=1, limit=20):
        return cls.surveys() + ('responses', survey_id, page, limit)

    @classmethod
    def alerts(cls):
        return cls.all + ('alerts',)

    @classmethod
    def alert_list(cls, filters=None):
        return cls.alerts() + ('list', freeze(filters))

    @classmethod
    def alert_detail(cls, alert_id):
        return cls.alerts() + ('detail', alert_id)

    @classmethod
    def events(cls):
        return cls.all + ('events',)

    @classmethod
    def event_list(cls, filters=None):
        return cls.events() + ('list', freeze(filters))

    @classmethod
    def event_detail(cls, event_id):
        return cls.events() + ('detail', event_id)


class CommunicationClient(FeatureClient):
    keys = CommunicationKeys

    def stats(self):
        return self._query(CommunicationKeys.stats(), f'{BASE}/stats')

    # Announcements

    def announcements(self, **filters):
        return self._query(CommunicationKeys.announcement_list(filters), f'{BASE}/announcements',
                           params=filters, envelope=True)

    def announcement(self, announcement_id):
        return self._query(CommunicationKeys.announcement_detail(announcement_id),
                           f'{BASE}/announcements/{announcement_id}')

    def create_announcement(self, payload):
        return self._mutate('POST', f'{BASE}/announcements', payload,
                            invalidate=(CommunicationKeys.announcements(), CommunicationKeys.stats()))

    def update_announcement(self, announcement_id, payload):
        return self._mutate('PUT', f'{BASE}/announcements/{announcement_id}', payload,
                            invalidate=(CommunicationKeys.announcements(), CommunicationKeys.stats()))

    def delete_announcement(self, announcement_id):
        return self._mutate('DELETE', f'{BASE}/announcements/{announcement_id}',
                            invalidate=(CommunicationKeys.announcements(), CommunicationKeys.stats()))

    def acknowledge_announcement(self, announcement_id):
        return self._mutate('POST', f'{BASE}/announcements/{announcement_id}/acknowledge',
                            invalidate=(CommunicationKeys.announcements(),))

    # Messaging

    def conversations(self, **filters):
        return self._query(CommunicationKeys.conversation_list(filters), f'{BASE}/conversations', params=filters)

    def messages(self, conversation_id, page=1, limit=50):
        return self._query(CommunicationKeys.messages(conversation_id, page, limit),
                           f'{BASE}/conversations/{conversation_id}/messages',
                           params={'page': page, 'limit': limit}, envelope=True)

    def send_message(self, content, conversation_id=None, recipient_ids=None, **extra):
        payload = dict(extra, content=content)
        if conversation_id:
            payload['conversationId'] = conversation_id
        if recipient_ids:
            payload['recipientIds'] = list(recipient_ids)
        return self._mutate('POST', f'{BASE}/messages', payload,
                            invalidate=(CommunicationKeys.conversations(), CommunicationKeys.stats()))

    # Circulars

    def circulars(self, **filters):
        return self._query(CommunicationKeys.circular_list(filters), f'{BASE}/circulars',
                           params=filters, envelope=True)

    def circular(self, circular_id):
        return self._query(CommunicationKeys.circular_detail(circular_id), f'{BASE}/circulars/{circular_id}')

    def create_circular(self, payload):
        return self._mutate('POST', f'{BASE}/circulars', payload,
                            invalidate=(CommunicationKeys.circulars(), CommunicationKeys.stats()))

    def update_circular(self, circular_id, payload):
        return self._mutate('PUT', f'{BASE}/circulars/{circular_id}', payload,
                            invalidate=(CommunicationKeys.circulars(), CommunicationKeys.stats()))

    def delete_circular(self, circular_id):
        return self._mutate('DELETE', f'{BASE}/circulars/{circular_id}',
                            invalidate=(CommunicationKeys.circulars(), CommunicationKeys.stats()))

    def download_circular(self, circular_id):
        return self._mutate('POST', f'{BASE}/circulars/{circular_id}/download',
                            invalidate=(CommunicationKeys.circular_detail(circular_id),))

    # Surveys

    def surveys(self, **filters):
        return self._query(CommunicationKeys.survey_list(filters), f'{BASE}/surveys',
                           params=filters, envelope=True)

    def survey(self, survey_id):
        return self._query(CommunicationKeys.survey_detail(survey_id), f'{BASE}/surveys/{survey_id}')

    def create_survey(self, payload):
        return self._mutate('POST', f'{BASE}/surveys', payload,
                            invalidate=(CommunicationKeys.surveys(), CommunicationKeys.stats()))

    def update_survey(self, survey_id, payload):
        return self._mutate('PUT', f'{BASE}/surveys/{survey_id}', payload,
                            invalidate=(CommunicationKeys.surveys(), CommunicationKeys.stats()))

    def delete_survey(self, survey_id):
        return self._mutate('DELETE', f'{BASE}/surveys/{survey_id}',
                            invalidate=(CommunicationKeys.surveys(), CommunicationKeys.stats()))

    def submit_survey_response(self, survey_id, answers):
        return self._mutate('POST', f'{BASE}/surveys/{survey_id}/responses', {'answers': answers},
                            invalidate=(CommunicationKeys.surveys(),))

    def survey_responses(self, survey_id, page=1, limit=20):
        return self._query(CommunicationKeys.survey_responses(survey_id, page, limit),
                           f'{BASE}/surveys/{survey_id}/responses',
                           params={'page': page, 'limit': limit}, envelope=True)

    # Emergency alerts

    def alerts(self, **filters):
        return self._query(CommunicationKeys.alert_list(filters), f'{BASE}/alerts', params=filters)

    def alert(self, alert_id):
        return self._query(CommunicationKeys.alert_detail(alert_id), f'{BASE}/alerts/{alert_id}')

    def create_alert(self, payload):
        return self._mutate('POST', f'{BASE}/alerts', payload,
                            invalidate=(CommunicationKeys.alerts(), CommunicationKeys.stats()))

    def update_alert(self, alert_id, payload):
        return self._mutate('PUT', f'{BASE}/alerts/{alert_id}', payload,
                            invalidate=(CommunicationKeys.alerts(), CommunicationKeys.stats()))

    def acknowledge_alert(self, alert_id, status='safe', location=None):
        payload = {'status': status}
        if location:
            payload['location'] = location
        return self._mutate('POST', f'{BASE}/alerts/{alert_id}/acknowledge', payload,
                            invalidate=(CommunicationKeys.alerts(),))

    # Events

    def events(self, **filters):
        return self._query(CommunicationKeys.event_list(filters), f'{BASE}/events', params=filters)

    def event(self, event_id):
        return self._query(CommunicationKeys.event_detail(event_id), f'{BASE}/events/{event_id}')

    def create_event(self, payload):
        return self._mutate('POST', f'{BASE}/events', payload,
                            invalidate=(CommunicationKeys.events(), CommunicationKeys.stats()))

    def update_event(self, event_id, payload):
        return self._mutate('PUT', f'{BASE}/events/{event_id}', payload,
                            invalidate=(CommunicationKeys.events(), CommunicationKeys.stats()))

    def delete_event(self, event_id):
        return self._mutate('DELETE', f'{BASE}/events/{event_id}',
                            invalidate=(CommunicationKeys.events(), CommunicationKeys.stats()))

    def register_for_event(self, event_id):
        return self._mutate('POST', f'{BASE}/events/{event_id}/register',
                            invalidate=(CommunicationKeys.events(),))

    def cancel_event_registration(self, event_id):
        return self._mutate('DELETE', f'{BASE}/events/{event_id}/register',
                            invalidate=(CommunicationKeys.events(),))
