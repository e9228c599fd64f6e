from schooladmin.client.cache import FeatureClient, freeze


class AlumniKeys:
    all = ('alumni',)

    @classmethod
    def stats(cls):
        return cls.all + ('stats',)

    @classmethod
    def batch_stats(cls):
        return cls.all + ('batch-stats',)

    @classmethod
    def lists(cls):
        return cls.all + ('list',)

    @classmethod
    def list(cls, filters=None):
        return cls.lists() + (freeze(filters),)

    @classmethod
    def details(cls):
        return cls.all + ('detail',)

    @classmethod
    def detail(cls, alumni_id):
        return cls.details() + (alumni_id,)

    @classmethod
    def achievements(cls):
        return cls.all + ('achievements',)

    @classmethod
    def achievements_list(cls, filters=None):
        return cls.achievements() + ('list', freeze(filters))

    @classmethod
    def contributions(cls):
        return cls.all + ('contributions',)

    @classmethod
    def contributions_list(cls, filters=None):
        return cls.contributions() + ('list', freeze(filters))

    @classmethod
    def events(cls):
        return cls.all + ('events',)

    @classmethod
    def events_list(cls, filters=None):
        return cls.events() + ('list', freeze(filters))

    @classmethod
    def event_detail(cls, event_id):
        return cls.events() + ('detail', event_id)

    @classmethod
    def event_registrations(cls, event_id):
        return cls.events() + ('registrations', event_id)

    @classmethod
    def eligible_for_graduation(cls):
        return cls.all + ('eligible-for-graduation',)


STUDENTS_KEY = ('students',)


class AlumniClient(FeatureClient):
    keys = AlumniKeys

    # Stats

    def stats(self):
        return self._query(AlumniKeys.stats(), '/api/alumni/stats')

    def batch_stats(self):
        return self._query(AlumniKeys.batch_stats(), '/api/alumni/batches/stats')

    # Alumni

    def list(self, **filters):
        """Paginated alumni list; returns the `{data, meta}` envelope."""
        return self._query(AlumniKeys.list(filters), '/api/alumni', params=filters, envelope=True)

    def get(self, alumni_id):
        return self._query(AlumniKeys.detail(alumni_id), f'/api/alumni/{alumni_id}')

    def create(self, payload):
        return self._mutate('POST', '/api/alumni', payload,
                            invalidate=(AlumniKeys.lists(), AlumniKeys.stats(), AlumniKeys.batch_stats()))

    def update(self, alumni_id, payload):
        return self._mutate('PUT', f'/api/alumni/{alumni_id}', payload,
                            invalidate=(AlumniKeys.detail(alumni_id), AlumniKeys.lists()))

    def verify(self, alumni_id):
        return self._mutate('PATCH', f'/api/alumni/{alumni_id}/verify',
                            invalidate=(AlumniKeys.detail(alumni_id), AlumniKeys.lists(),
                                        AlumniKeys.stats(), AlumniKeys.batch_stats()))

    def delete(self, alumni_id):
        return self._mutate('DELETE', f'/api/alumni/{alumni_id}',
                            invalidate=(AlumniKeys.details(), AlumniKeys.lists(),
                                        AlumniKeys.stats(), AlumniKeys.batch_stats()))

    # Achievements

    def achievements(self, **filters):
        return self._query(AlumniKeys.achievements_list(filters), '/api/alumni/achievements', params=filters)

    def create_achievement(self, payload):
        return self._mutate('POST', '/api/alumni/achievements', payload,
                            invalidate=(AlumniKeys.achievements(), AlumniKeys.stats(), AlumniKeys.batch_stats()))

    def update_achievement(self, achievement_id, payload):
        return self._mutate('PUT', f'/api/alumni/achievements/{achievement_id}', payload,
                            invalidate=(AlumniKeys.achievements(),))

    def publish_achievement(self, achievement_id, is_published=True):
        return self._mutate('PATCH', f'/api/alumni/achievements/{achievement_id}/publish',
                            {'isPublished': is_published},
                            invalidate=(AlumniKeys.achievements(), AlumniKeys.stats()))

    def delete_achievement(self, achievement_id):
        return self._mutate('DELETE', f'/api/alumni/achievements/{achievement_id}',
                            invalidate=(AlumniKeys.achievements(), AlumniKeys.stats(), AlumniKeys.batch_stats()))

    # Contributions

    def contributions(self, **filters):
        return self._query(AlumniKeys.contributions_list(filters), '/api/alumni/contributions', params=filters)

    def create_contribution(self, payload):
        return self._mutate('POST', '/api/alumni/contributions', payload,
                            invalidate=(AlumniKeys.contributions(), AlumniKeys.stats(), AlumniKeys.batch_stats()))

    def update_contribution_status(self, contribution_id, status, acknowledgement=None):
        payload = {'status': status}
        if acknowledgement is not None:
            payload['acknowledgement'] = acknowledgement
        return self._mutate('PATCH', f'/api/alumni/contributions/{contribution_id}/status', payload,
                            invalidate=(AlumniKeys.contributions(), AlumniKeys.stats()))

    def delete_contribution(self, contribution_id):
        return self._mutate('DELETE', f'/api/alumni/contributions/{contribution_id}',
                            invalidate=(AlumniKeys.contributions(), AlumniKeys.stats(), AlumniKeys.batch_stats()))

    # Events

    def events(self, **filters):
        return self._query(AlumniKeys.events_list(filters), '/api/alumni/events', params=filters)

    def event(self, event_id):
        return self._query(AlumniKeys.event_detail(event_id), f'/api/alumni/events/{event_id}')

    def create_event(self, payload):
        return self._mutate('POST', '/api/alumni/events', payload,
                            invalidate=(AlumniKeys.events(), AlumniKeys.stats()))

    def update_event(self, event_id, payload):
        return self._mutate('PUT', f'/api/alumni/events/{event_id}', payload,
                            invalidate=(AlumniKeys.events(),))

    def update_event_status(self, event_id, status):
        return self._mutate('PATCH', f'/api/alumni/events/{event_id}/status', {'status': status},
                            invalidate=(AlumniKeys.events(), AlumniKeys.stats()))

    def delete_event(self, event_id):
        return self._mutate('DELETE', f'/api/alumni/events/{event_id}',
                            invalidate=(AlumniKeys.events(), AlumniKeys.stats()))

    def event_registrations(self, event_id):
        return self._query(AlumniKeys.event_registrations(event_id), f'/api/alumni/events/{event_id}/registrations')

    def register_for_event(self, event_id, alumni_id):
        return self._mutate('POST', f'/api/alumni/events/{event_id}/register', {'alumniId': alumni_id},
                            invalidate=(AlumniKeys.events(),))

    def cancel_registration(self, event_id, alumni_id):
        return self._mutate('DELETE', f'/api/alumni/events/{event_id}/register/{alumni_id}',
                            invalidate=(AlumniKeys.events(),))

    # Graduation

    def eligible_for_graduation(self):
        return self._query(AlumniKeys.eligible_for_graduation(), '/api/alumni/eligible-for-graduation')

    def _graduation_prefixes(self):
        return (AlumniKeys.lists(), AlumniKeys.stats(), AlumniKeys.batch_stats(),
                AlumniKeys.eligible_for_graduation(), STUDENTS_KEY)

    def graduate(self, payload):
        return self._mutate('POST', '/api/alumni/graduate', payload, invalidate=self._graduation_prefixes())

    def graduate_batch(self, payload):
        return self._mutate('POST', '/api/alumni/graduate-batch', payload, invalidate=self._graduation_prefixes())
